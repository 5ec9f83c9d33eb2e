"""Tests for template loading, rendering and document splitting."""

from pathlib import Path

import pytest

from deployer.template_loader import (
    MAX_TEMPLATE_FILE_SIZE_BYTES,
    TemplateError,
    load_template,
    render_template,
    split_documents,
)


class TestLoadTemplate:
    """Tests for load_template."""

    def test_reads_file(self, tmp_path: Path) -> None:
        path = tmp_path / "deploy.yaml"
        path.write_text("kind: ConfigMap\n")

        assert load_template(path) == "kind: ConfigMap\n"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(TemplateError) as exc_info:
            load_template(tmp_path / "missing.yaml")

        assert "not found" in str(exc_info.value)

    def test_directory_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(TemplateError):
            load_template(tmp_path)

    def test_oversized_file(self, tmp_path: Path) -> None:
        path = tmp_path / "huge.yaml"
        path.write_bytes(b"#" * (MAX_TEMPLATE_FILE_SIZE_BYTES + 1))

        with pytest.raises(TemplateError) as exc_info:
            load_template(path)

        assert "exceeds maximum size" in str(exc_info.value)

    def test_non_utf8_file(self, tmp_path: Path) -> None:
        path = tmp_path / "binary.yaml"
        path.write_bytes(b"\xff\xfe\xfa")

        with pytest.raises(TemplateError):
            load_template(path)


class TestRenderTemplate:
    """Tests for render_template."""

    def test_substitutes_variables(self) -> None:
        rendered = render_template("image: app:{{ image_tag }}\n", {"image_tag": "1.2.3"})

        assert rendered == "image: app:1.2.3\n"

    def test_undefined_variable_renders_empty(self) -> None:
        assert render_template("tag: '{{ missing }}'", {}) == "tag: ''"

    def test_no_html_escaping(self) -> None:
        assert render_template("{{ v }}", {"v": "<a & b>"}) == "<a & b>"

    def test_syntax_error(self) -> None:
        with pytest.raises(TemplateError) as exc_info:
            render_template("{% if %}", {})

        assert "Failed to render template" in str(exc_info.value)

    def test_handlebars_block_rejected(self) -> None:
        with pytest.raises(TemplateError):
            render_template("{{#if debug}}level: debug\n{{/if}}", {"debug": "true"})

    def test_jinja_block_equivalent(self) -> None:
        template = "{% if debug %}level: debug\n{% endif %}"

        assert render_template(template, {"debug": "true"}) == "level: debug\n"
        assert render_template(template, {}) == ""


class TestSplitDocuments:
    """Tests for split_documents."""

    def test_splits_on_separator_lines(self) -> None:
        text = "a: 1\n---\nb: 2\n---\nc: 3\n"

        assert split_documents(text) == ["a: 1", "b: 2", "c: 3"]

    def test_leading_separator_and_empty_parts_dropped(self) -> None:
        text = "---\na: 1\n---\n\n---\n# only a comment\n---\nb: 2\n"

        assert split_documents(text) == ["a: 1", "b: 2"]

    def test_separator_inside_value_not_split(self) -> None:
        text = "data:\n  banner: '--- header ---'\n"

        assert split_documents(text) == ["data:\n  banner: '--- header ---'"]

    def test_trailing_whitespace_on_separator(self) -> None:
        assert split_documents("a: 1\n---  \nb: 2") == ["a: 1", "b: 2"]

    def test_empty_manifest(self) -> None:
        assert split_documents("\n\n") == []
