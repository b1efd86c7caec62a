"""Tests for Jinja2 template rendering."""
import pytest
from jinja2 import TemplateNotFound, UndefinedError

from regenconf.core.templates import TemplateRenderer


def test_renders_shipped_template():
    text = TemplateRenderer().render("apt/apt.conf.j2", install_recommends=False, retries=5)

    assert 'Acquire::Retries "5";' in text
    assert text.endswith("\n")


def test_undefined_variable_is_an_error():
    with pytest.raises(UndefinedError):
        TemplateRenderer().render("apt/apt.conf.j2", install_recommends=False)


def test_missing_template(tmp_path):
    with pytest.raises(TemplateNotFound):
        TemplateRenderer(tmp_path).render("nope/missing.j2")


def test_custom_template_dir(tmp_path):
    (tmp_path / "svc").mkdir()
    (tmp_path / "svc" / "conf.j2").write_text("{% for k in keys %}\n{{ k }}=1\n{% endfor %}\n")

    assert TemplateRenderer(tmp_path).render("svc/conf.j2", keys=["a", "b"]) == "a=1\nb=1\n"
