"""Unit tests for the add-tag and new-post flows."""

import json
from datetime import datetime
from pathlib import Path
from typing import List

import pytest

from _tagblog.authoring import (
    AddTagFlow,
    AddTagState,
    NewPostFlow,
    NewPostState,
    PostDraft,
    make_key_validator,
    tag_tree_choices,
    validate_description,
    validate_label,
    validate_post_date,
    validate_slug,
    write_post,
)
from _tagblog.markdown_processor import MarkdownProcessor
from _tagblog.prompts import ConsolePrompter, ValidationError
from _tagblog.tags import TagStore


class ScriptedInput:
    def __init__(self, answers):
        self.answers = list(answers)

    def __call__(self, prompt: str) -> str:
        answer = self.answers.pop(0)
        if isinstance(answer, type) and issubclass(answer, BaseException):
            raise answer()
        return answer


def scripted_prompter(answers, output: List[str]) -> ConsolePrompter:
    return ConsolePrompter(
        input_func=ScriptedInput(answers),
        print_func=lambda *args: output.append(" ".join(str(a) for a in args)),
    )


class TestValidators:
    def test_label(self) -> None:
        validate_label("Python")
        with pytest.raises(ValidationError, match="标签名不能为空"):
            validate_label("   ")

    def test_description(self) -> None:
        with pytest.raises(ValidationError, match="说明不能为空"):
            validate_description("")

    @pytest.mark.parametrize(
        "key, message",
        [
            ("", "key 不能为空"),
            ("Rust", "小写字母"),
            ("rust lang", "小写字母"),
            ("rust_lang", "小写字母"),
            ("python", "已存在"),
        ],
    )
    def test_key_rejected(self, sample_tags, key, message) -> None:
        validate = make_key_validator(sample_tags)

        with pytest.raises(ValidationError, match=message):
            validate(key)

    def test_key_accepted(self, sample_tags) -> None:
        make_key_validator(sample_tags)("rust-2024")

    def test_slug(self) -> None:
        validate_slug("hello-world")
        with pytest.raises(ValidationError):
            validate_slug("a/b")

    @pytest.mark.parametrize("value", ["2024-02-30 10:00", "2024-01-01", "2024/01/01 10:00"])
    def test_post_date_rejected(self, value) -> None:
        with pytest.raises(ValidationError, match="日期格式"):
            validate_post_date(value)

    def test_post_date_accepted(self) -> None:
        validate_post_date("2024-02-29 23:59")


class TestTagTreeChoices:
    def test_indented_display_paths(self, sample_tags) -> None:
        choices = tag_tree_choices(sample_tags, lambda flat: flat.key)

        assert [choice.name for choice in choices] == [
            "Programming",
            "  Programming > Python",
            "    Programming > Python > Static Site",
            "Diary",
        ]
        assert [choice.value for choice in choices] == ["programming", "python", "static-site", "diary"]
        assert choices[0].description == "编程"


class TestAddTagFlow:
    def test_commit_child_tag(self, tags_file: Path) -> None:
        """空输入采用建议的 key，父标签选择 Programming."""
        output: List[str] = []
        prompter = scripted_prompter(["Rust Lang", "", "Rust 语言", "2", ""], output)
        flow = AddTagFlow(TagStore(str(tags_file)), prompter)

        created = flow.run()

        assert flow.state is AddTagState.COMMITTED
        assert created.id == 5
        assert created.key == "rust-lang"
        assert created.parent_id == 1
        saved = json.loads(tags_file.read_text(encoding="utf-8"))
        assert saved[-1] == {
            "id": 5, "key": "rust-lang", "label": "Rust Lang",
            "description": "Rust 语言", "parentId": 1,
        }
        assert "  父标签 : Programming (id: 1)" in output

    def test_commit_root_tag(self, tags_file: Path) -> None:
        output: List[str] = []
        prompter = scripted_prompter(["Travel", "trip", "旅行", "1", "y"], output)

        created = AddTagFlow(TagStore(str(tags_file)), prompter).run()

        assert created.parent_id is None
        assert "parentId" not in json.loads(tags_file.read_text(encoding="utf-8"))[-1]
        assert "  父标签 : 无 (根标签)" in output

    def test_invalid_key_is_asked_again(self, tags_file: Path) -> None:
        output: List[str] = []
        prompter = scripted_prompter(["Py", "python", "Py", "py", "短", "1", ""], output)

        created = AddTagFlow(TagStore(str(tags_file)), prompter).run()

        assert created.key == "py"
        assert '  ✗ key "python" 已存在' in output
        assert "  ✗ key 只能使用小写字母、数字和连字符" in output

    def test_declined_confirmation_aborts(self, tags_file: Path) -> None:
        """确认时回答否，文件不变."""
        before = tags_file.read_bytes()
        prompter = scripted_prompter(["Rust", "", "Rust", "1", "n"], [])
        flow = AddTagFlow(TagStore(str(tags_file)), prompter)

        assert flow.run() is None
        assert flow.state is AddTagState.ABORTED
        assert tags_file.read_bytes() == before

    @pytest.mark.parametrize("answered", range(5))
    def test_cancel_at_any_step(self, tags_file: Path, answered: int) -> None:
        """任意一步按 Ctrl+C，文件不变."""
        before = tags_file.read_bytes()
        answers = ["Rust", "", "Rust", "1", ""][:answered] + [KeyboardInterrupt]
        flow = AddTagFlow(TagStore(str(tags_file)), scripted_prompter(answers, []))

        assert flow.run() is None
        assert flow.state is AddTagState.ABORTED
        assert tags_file.read_bytes() == before


class TestPostDraft:
    def test_filename(self) -> None:
        post = PostDraft(title="T", slug="hello", date="2024-03-01 09:30")

        assert post.filename == "2024-03-01_hello.md"

    def test_to_markdown(self) -> None:
        post = PostDraft(
            title='Say "hi"', slug="hi", date="2024-03-01 09:30",
            tags=["python", "diary"], description="", draft=True,
        )

        assert post.to_markdown() == (
            "---\n"
            'title: "Say \\"hi\\""\n'
            "date: 2024-03-01 09:30\n"
            "slug: hi\n"
            "draft: true\n"
            'tags: ["python", "diary"]\n'
            'description: ""\n'
            "---\n\n"
        )

    def test_write_post_refuses_to_overwrite(self, tmp_path: Path) -> None:
        post = PostDraft(title="T", slug="hello", date="2024-03-01 09:30")
        path = write_post(tmp_path, post)
        path.write_text("原来的内容", encoding="utf-8")

        with pytest.raises(FileExistsError):
            write_post(tmp_path, post)

        assert path.read_text(encoding="utf-8") == "原来的内容"


class TestNewPostFlow:
    def now(self) -> datetime:
        return datetime(2024, 3, 1, 9, 30)

    def test_writes_post(self, tmp_path: Path, sample_tags) -> None:
        """生成的文件可以被文章加载器读取."""
        answers = ["Hello, World!", "", "", "2", "概要", "n"]
        flow = NewPostFlow(tmp_path, sample_tags, scripted_prompter(answers, []), now=self.now)

        path = flow.run()

        assert flow.state is NewPostState.WRITTEN
        assert path == tmp_path / "2024-03-01_hello-world.md"
        post = MarkdownProcessor(str(tmp_path)).parse_post(str(path))
        assert post.title == "Hello, World!"
        assert post.slug == "hello-world"
        assert post.date == datetime(2024, 3, 1, 9, 30)
        assert post.tags == ["python"]
        assert post.description == "概要"
        assert post.draft is False

    def test_defaults_to_draft(self, tmp_path: Path, sample_tags) -> None:
        answers = ["Note", "", "2024-04-01 08:00", "", "", ""]
        flow = NewPostFlow(tmp_path, sample_tags, scripted_prompter(answers, []), now=self.now)

        path = flow.run()

        assert path.name == "2024-04-01_note.md"
        assert flow.answers["draft"] is True
        assert "draft: true" in path.read_text(encoding="utf-8")

    def test_no_tags_defined_skips_tag_step(self, tmp_path: Path) -> None:
        answers = ["Note", "", "", "", ""]
        path = NewPostFlow(tmp_path, [], scripted_prompter(answers, []), now=self.now).run()

        assert "tags: []" in path.read_text(encoding="utf-8")

    def test_cancel_writes_nothing(self, tmp_path: Path, sample_tags) -> None:
        answers = ["Note", "", EOFError]
        flow = NewPostFlow(tmp_path, sample_tags, scripted_prompter(answers, []), now=self.now)

        assert flow.run() is None
        assert flow.state is NewPostState.ABORTED
        assert list(tmp_path.iterdir()) == []

    def test_existing_file(self, tmp_path: Path, sample_tags) -> None:
        (tmp_path / "2024-03-01_note.md").write_text("---\n---\n", encoding="utf-8")
        answers = ["Note", "", "", "", "", ""]
        flow = NewPostFlow(tmp_path, sample_tags, scripted_prompter(answers, []), now=self.now)

        with pytest.raises(FileExistsError):
            flow.run()
