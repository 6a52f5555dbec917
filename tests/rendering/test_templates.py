"""Tests for the template catalogue."""

from __future__ import annotations

import json

import pytest

from dashspine.catalog.rules import TemplateType
from dashspine.core.errors import TemplateError
from dashspine.rendering.templates import (
    REQUIRED_TEMPLATE_FILES,
    TemplateStore,
    validate_templates,
)


@pytest.fixture
def template_dir(tmp_path):
    for name in REQUIRED_TEMPLATE_FILES:
        (tmp_path / name).write_text(json.dumps({"panels": []}), encoding="utf-8")
    return tmp_path


class TestPackagedTemplates:
    def test_all_required_templates_valid(self):
        checks = validate_templates(TemplateStore())
        assert len(checks) == len(REQUIRED_TEMPLATE_FILES) == 10
        assert all(c.ok for c in checks)

    def test_get_is_cached(self):
        store = TemplateStore()
        assert store.get(TemplateType.SKEW) is store.get(TemplateType.SKEW)


class TestDirectoryOverride:
    def test_loads_from_directory(self, template_dir):
        store = TemplateStore(template_dir)
        assert store.get(TemplateType.SKEW) == {"panels": []}

    def test_missing_file_reported(self, template_dir):
        (template_dir / "skew_template.json").unlink()
        checks = validate_templates(TemplateStore(template_dir), strict=False)
        failed = [c for c in checks if not c.ok]
        assert [c.filename for c in failed] == ["skew_template.json"]
        assert "missing" in failed[0].error

    def test_invalid_json_raises_in_strict_mode(self, template_dir):
        (template_dir / "errors_template.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(TemplateError):
            validate_templates(TemplateStore(template_dir))

    def test_non_object_rejected(self, template_dir):
        (template_dir / "drc_template.json").write_text("[]", encoding="utf-8")
        with pytest.raises(TemplateError):
            TemplateStore(template_dir).get(TemplateType.DRC)
