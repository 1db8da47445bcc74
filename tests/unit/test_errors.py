#!/usr/bin/env python3
"""
Tests for the error taxonomy and the rustc-style diagnostic renderer.
"""

import pytest
from kernelgrid.shared.errors import (
    AmbiguousDimensions,
    Diagnostic,
    KernelArgumentError,
    KernelConfigError,
    KernelError,
    KernelImplementationError,
    KernelSourceError,
    UnsupportedAutoDimensionType,
    UnsupportedInputType,
    format_diagnostic,
)
from kernelgrid.shared.source_location import SourceLocation
from tests.test_utils import strip_ansi


class TestFormatDiagnostic:
    def test_location_none(self):
        out = format_diagnostic(Diagnostic(message="something failed", location=None, code="K0001"), {})
        assert "error[K0001]" in out
        assert "something failed" in out
        assert "<unknown location>" in out

    def test_file_not_in_source_files(self):
        loc = SourceLocation(file="missing.kernel", line=1, column=1)
        out = format_diagnostic(Diagnostic(message="oops", location=loc, code="K0425"), {})
        assert "error[K0425]" in out
        assert "missing.kernel:1:1" in out
        assert "|" not in out

    def test_line_beyond_source(self):
        loc = SourceLocation(file="x.kernel", line=10, column=1)
        out = format_diagnostic(Diagnostic(message="bad", location=loc), {"x.kernel": "let a = 1;\n"})
        assert " --> x.kernel:10:1" in out
        assert "10 | " in out

    def test_caret_guesses_token_width(self):
        loc = SourceLocation(file="f.kernel", line=1, column=8)
        diag = Diagnostic(message="cannot find value", location=loc, label="not found")
        out = format_diagnostic(diag, {"f.kernel": "return foo + 1;"})
        lines = out.split("\n")
        assert "1 | return foo + 1;" in out
        assert lines[-1].endswith("^^^ not found")

    def test_caret_uses_end_column(self):
        loc = SourceLocation(file="f.kernel", line=1, column=8, end_line=1, end_column=15)
        out = format_diagnostic(Diagnostic(message="m", location=loc), {"f.kernel": "return foo + bar;"})
        assert out.split("\n")[-1].endswith("^" * 7)

    def test_help(self):
        loc = SourceLocation(file="f.kernel", line=1, column=1)
        diag = Diagnostic(message="m", location=loc, help="declare it first")
        out = format_diagnostic(diag, {"f.kernel": "x = 1;"})
        assert "= help: declare it first" in out

    def test_color_adds_escapes(self):
        out = format_diagnostic(Diagnostic(message="m", location=None), {}, color=True)
        assert "\x1b[" in out
        assert strip_ansi(out).startswith("error: m")


class TestKernelSourceError:
    def test_renders_with_source(self):
        loc = SourceLocation(file="<kernel>", line=1, column=8)
        err = KernelSourceError("cannot find value `q` in this scope", loc, error_code="K0425",
                                source_code="return q + 1;", label="not found in this scope")
        text = strip_ansi(str(err))
        assert "error[K0425]" in text
        assert "1 | return q + 1;" in text
        assert "^ not found in this scope" in text

    def test_with_source_attaches_text(self):
        loc = SourceLocation(file="<kernel>", line=1, column=1)
        err = KernelSourceError("m", loc).with_source("zzz;")
        assert "1 | zzz;" in strip_ansi(str(err))

    def test_no_color_env(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "1")
        assert "\x1b[" not in str(KernelSourceError("m"))

    def test_color_env_override(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("KERNELGRID_COLOR", "never")
        assert "\x1b[" not in str(KernelSourceError("m"))


class TestTaxonomy:
    @pytest.mark.parametrize("error", [
        UnsupportedInputType(0, "x"),
        AmbiguousDimensions(2),
        UnsupportedAutoDimensionType("Number"),
        KernelConfigError("c"),
        KernelArgumentError("a"),
        KernelSourceError("s"),
    ])
    def test_all_user_errors_are_kernel_errors(self, error):
        assert isinstance(error, KernelError)

    def test_implementation_error_is_separate(self):
        err = KernelImplementationError("broken")
        assert not isinstance(err, KernelError)
        assert str(err) == "[K9999] broken"

    def test_kernel_error_location_in_message(self):
        err = KernelConfigError("bad", SourceLocation(file="f", line=2, column=3))
        assert str(err) == "bad (f:2:3)"

    def test_ambiguous_dimensions_message(self):
        assert "only one input" in str(AmbiguousDimensions(3))


if __name__ == "__main__":
    pytest.main([__file__])
