"""
tagblog: 带层级标签的静态博客生成器与写作工具
"""
