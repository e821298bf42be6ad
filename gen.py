#!/usr/bin/env python3
"""
博客静态文件生成脚本

    python gen.py [--env development] [--config config.json]

等同于 `tagblog build`
"""
import sys
from pathlib import Path
from typing import List

# 未安装时也可以直接在仓库根目录运行
sys.path.insert(0, str(Path(__file__).parent))

from _tagblog.cli import main


def build_argv(args: List[str]) -> List[str]:
    """把全局选项移到 build 子命令之前"""
    global_args: List[str] = []
    build_args: List[str] = []
    i = 0
    while i < len(args):
        arg = args[i]
        if arg in ('--config', '-c'):
            global_args.extend(args[i:i + 2])
            i += 2
            continue
        if arg.startswith('--config='):
            global_args.append(arg)
        elif arg in ('--verbose', '-v'):
            global_args.append(arg)
        else:
            build_args.append(arg)
        i += 1
    return global_args + ['build'] + build_args


if __name__ == "__main__":
    sys.exit(main(build_argv(sys.argv[1:])))
