"""
标签一览报告（list-tags 命令的输出）
"""
from typing import List, Mapping, Sequence

from .tags import FlatTagWithPath

RESET = "\x1b[0m"
BOLD = "\x1b[1m"
DIM = "\x1b[2m"
CYAN = "\x1b[36m"
GREEN = "\x1b[32m"
YELLOW = "\x1b[33m"
GRAY = "\x1b[90m"
WHITE = "\x1b[97m"
BG_CYAN = "\x1b[46m"


class _Palette:
    def __init__(self, color: bool):
        self.color = color

    def __call__(self, text: str, *codes: str) -> str:
        if not self.color or not codes:
            return text
        return f"{''.join(codes)}{text}{RESET}"


def render_tag_report(flat_tags: Sequence[FlatTagWithPath], counts: Mapping[str, int],
                      color: bool = True) -> str:
    """
    生成标签树报告

    每个标签占两行：树形记号、标签名、[key]、文章数，以及缩进后的说明

    Args:
        flat_tags: 展开后的标签
        counts: key -> 文章数
        color: 是否输出 ANSI 颜色

    Returns:
        报告文本
    """
    paint = _Palette(color)
    lines: List[str] = [
        "",
        f"{paint('  标签一览  ', BG_CYAN, BOLD)}  {paint(f'共登记了 {len(flat_tags)} 个标签', GRAY)}",
        "",
    ]

    for tag in flat_tags:
        indent = "  " * tag.depth
        is_root = tag.depth == 0
        count = counts.get(tag.key, 0)

        tree_prefix = f"{paint('❯', CYAN)} " if is_root else f"  {paint('›', GRAY)} "
        label = paint(tag.label, BOLD, WHITE) if is_root else paint(tag.label, WHITE)
        key = paint(f"[{tag.key}]", GRAY)
        badge = paint(f"{count} 篇", GREEN) if count > 0 else paint("0 篇", DIM, GRAY)

        lines.append(f"{indent}{tree_prefix}{label}  {key}  {badge}")
        lines.append(f"{indent}      {paint(tag.description, GRAY)}")

    total = sum(counts.values())
    lines.extend([
        "",
        paint("─" * 61, DIM, GRAY),
        f"{paint('标签使用次数合计: ', GRAY)}{paint(str(total), YELLOW)}",
        "",
    ])
    return "\n".join(lines)
