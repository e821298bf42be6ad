"""
交互式输入模块
基于 input() 的简单提问工具；用户取消（Ctrl+C / Ctrl+D）时返回 None
"""
from dataclasses import dataclass
from typing import Any, Callable, List, Optional


class ValidationError(Exception):
    """输入不合法，提问时捕获并重新提问"""
    pass


Validator = Callable[[str], None]


@dataclass(frozen=True)
class Choice:
    """选项"""
    name: str
    value: Any
    description: str = ""


class ConsolePrompter:
    """命令行提问器"""

    def __init__(self, input_func: Callable[[str], str] = input,
                 print_func: Callable[..., None] = print):
        """
        Args:
            input_func: 读取一行输入的函数
            print_func: 输出函数
        """
        self._input = input_func
        self._print = print_func

    def _ask(self, prompt: str) -> Optional[str]:
        try:
            return self._input(prompt)
        except (KeyboardInterrupt, EOFError):
            self._print()
            return None

    def text(self, message: str, default: str = "",
             validate: Optional[Validator] = None) -> Optional[str]:
        """
        输入一行文本

        输入为空时使用默认值；验证失败时显示原因并重新提问

        Returns:
            输入的文本，取消时返回 None
        """
        suffix = f" ({default})" if default else ""
        while True:
            raw = self._ask(f"? {message}{suffix} ")
            if raw is None:
                return None

            value = raw.strip() or default
            if validate is not None:
                try:
                    validate(value)
                except ValidationError as e:
                    self._print(f"  ✗ {e}")
                    continue
            return value

    def select(self, message: str, choices: List[Choice]) -> Any:
        """
        从列表中选择一项

        Returns:
            选中项的 value，取消时返回 None
        """
        self._print(f"? {message}")
        for i, choice in enumerate(choices, 1):
            self._print(f"  {i:>3}) {choice.name}")

        while True:
            raw = self._ask(f"  编号 (1-{len(choices)}): ")
            if raw is None:
                return None
            try:
                index = int(raw.strip())
            except ValueError:
                self._print("  ✗ 请输入编号")
                continue
            if 1 <= index <= len(choices):
                chosen = choices[index - 1]
                if chosen.description:
                    self._print(f"    {chosen.description}")
                return chosen.value
            self._print(f"  ✗ 编号超出范围: {index}")

    def checkbox(self, message: str, choices: List[Choice]) -> Optional[List[Any]]:
        """
        从列表中选择多项（以逗号或空格分隔编号，直接回车表示不选）

        Returns:
            选中项的 value 列表（按列表顺序），取消时返回 None
        """
        self._print(f"? {message}")
        for i, choice in enumerate(choices, 1):
            self._print(f"  {i:>3}) {choice.name}")

        while True:
            raw = self._ask("  编号 (多个以逗号分隔，回车跳过): ")
            if raw is None:
                return None

            tokens = raw.replace(',', ' ').split()
            try:
                indexes = {int(token) for token in tokens}
            except ValueError:
                self._print("  ✗ 请输入编号")
                continue

            invalid = sorted(i for i in indexes if not 1 <= i <= len(choices))
            if invalid:
                self._print(f"  ✗ 编号超出范围: {', '.join(map(str, invalid))}")
                continue

            return [choice.value for i, choice in enumerate(choices, 1) if i in indexes]

    def confirm(self, message: str, default: bool = True) -> Optional[bool]:
        """
        是/否确认

        Returns:
            True / False，取消时返回 None
        """
        hint = "Y/n" if default else "y/N"
        while True:
            raw = self._ask(f"? {message} ({hint}) ")
            if raw is None:
                return None

            answer = raw.strip().lower()
            if not answer:
                return default
            if answer in ('y', 'yes'):
                return True
            if answer in ('n', 'no'):
                return False
            self._print("  ✗ 请输入 y 或 n")

    def info(self, message: str = "") -> None:
        self._print(message)
