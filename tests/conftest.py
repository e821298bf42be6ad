"""共享 fixture"""
import json
from datetime import datetime
from pathlib import Path
from typing import List

import pytest
from loguru import logger

from _tagblog.markdown_processor import Post
from _tagblog.tags import TagDefinition

REPO_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture
def sample_tags() -> List[TagDefinition]:
    """
    programming
      python
        static-site
    diary
    """
    return [
        TagDefinition(id=1, key="programming", label="Programming", description="编程"),
        TagDefinition(id=2, key="python", label="Python", description="Python 语言", parent_id=1),
        TagDefinition(id=3, key="diary", label="Diary", description="日常"),
        TagDefinition(id=4, key="static-site", label="Static Site", description="静态网站", parent_id=2),
    ]


@pytest.fixture
def tags_file(tmp_path: Path, sample_tags: List[TagDefinition]) -> Path:
    path = tmp_path / "tags.json"
    payload = [tag.to_dict() for tag in sample_tags]
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=4) + "\n", encoding="utf-8")
    return path


def build_post(slug: str = "post", tags=None, draft: bool = False,
              date: datetime = datetime(2024, 1, 1, 10, 0), **kwargs) -> Post:
    return Post(
        filepath=f"{slug}.md",
        slug=slug,
        title=kwargs.pop("title", slug.title()),
        date=date,
        tags=list(tags or []),
        draft=draft,
        **kwargs,
    )


@pytest.fixture
def make_post():
    return build_post


def write_markdown(path: Path, frontmatter: str, body: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"---\n{frontmatter.strip()}\n---\n\n{body}", encoding="utf-8")
    return path


@pytest.fixture
def blog_project(tmp_path: Path, sample_tags: List[TagDefinition]) -> Path:
    """带有配置、标签、文章和评论的最小博客目录，主题使用仓库自带的 theme"""
    root = tmp_path / "blog"
    root.mkdir()

    config = {
        "site": {"title": "Test Blog", "author": "tester"},
        "build": {
            "output_dir": "dist",
            "theme": str(REPO_ROOT / "theme"),
        },
    }
    (root / "config.json").write_text(json.dumps(config), encoding="utf-8")

    tags_path = root / "content" / "tags.json"
    tags_path.parent.mkdir(parents=True)
    tags_path.write_text(
        json.dumps([tag.to_dict() for tag in sample_tags], ensure_ascii=False, indent=4) + "\n",
        encoding="utf-8",
    )

    posts_dir = root / "content" / "posts"
    write_markdown(
        posts_dir / "2024-01-01_hello.md",
        'title: "Hello"\ndate: 2024-01-01 10:00\nslug: hello\ntags: ["diary", "unknown-tag"]',
        "第一段\n\n<!-- more -->\n\n后面的内容",
    )
    write_markdown(
        posts_dir / "2024-02-01_python.md",
        'title: "Python Post"\ndate: 2024-02-01 09:00\nslug: python-post\ntags: ["python"]',
        "Python 的内容",
    )
    write_markdown(
        posts_dir / "2024-03-01_draft.md",
        'title: "Draft Post"\ndate: 2024-03-01 09:00\nslug: draft-post\ndraft: true\ntags: ["python"]',
        "还没写完",
    )
    write_markdown(
        posts_dir / "samples" / "sample.md",
        'title: "Sample"\ndate: 2024-01-01 00:00\nslug: sample\ntags: ["diary"]',
    )

    comments_path = root / "content" / "comments" / "legacy-comments.json"
    comments_path.parent.mkdir(parents=True)
    comments_path.write_text(json.dumps([{
        "id": 1,
        "postSlug": "hello",
        "postTitle": "Hello",
        "author": "visitor",
        "date": "2024-01-02",
        "content": "不错",
    }]), encoding="utf-8")

    return root


@pytest.fixture
def markdown_writer():
    return write_markdown


@pytest.fixture
def log_messages():
    """收集 loguru 输出的 WARNING 及以上的日志"""
    messages: List[str] = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="WARNING")
    yield messages
    logger.remove(handler_id)
