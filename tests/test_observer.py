"""Tests for autofix.observer -- sandbox event classification."""

import pytest

from autofix.contracts import BuildSucceeded, Fault, FaultKind
from autofix.locate import extract_file_path, extract_position, normalise_path, strip_source_extension
from autofix.observer import BuildEventObserver


@pytest.fixture
def observer() -> BuildEventObserver:
    return BuildEventObserver()


# ===========================================================================
# done events
# ===========================================================================


class TestDoneEvents:
    def test_clean_done_is_build_succeeded(self, observer):
        signal = observer.observe({"type": "done", "compilatonError": False}, 10.0)
        assert isinstance(signal, BuildSucceeded)
        assert signal.observed_at == 10.0

    def test_done_without_flag_is_success(self, observer):
        assert isinstance(observer.observe({"kind": "done"}, 1.0), BuildSucceeded)

    def test_failed_done_is_build_failure(self, observer):
        signal = observer.observe({"type": "done", "compilatonError": True}, 3.0)
        assert isinstance(signal, Fault)
        assert signal.kind is FaultKind.BUILD_FAILURE
        assert signal.raw_message == "Build completed with compilation errors"
        assert signal.detected_at == 3.0

    def test_neutral_failed_flag(self, observer):
        signal = observer.observe({"kind": "done", "failed": True}, 0.0)
        assert signal.kind is FaultKind.BUILD_FAILURE

    def test_correctly_spelled_flag_accepted(self, observer):
        signal = observer.observe({"type": "done", "compilationError": True}, 0.0)
        assert signal.kind is FaultKind.BUILD_FAILURE


# ===========================================================================
# diagnostics
# ===========================================================================


class TestDiagnostics:
    def test_show_error_action(self, observer):
        event = {
            "type": "action",
            "action": "show-error",
            "message": "Cannot find name 'Header'",
            "path": "/src/App.tsx",
            "line": 5,
            "column": 11,
        }
        fault = observer.observe(event, 2.0)
        assert fault.kind is FaultKind.COMPILATION_ERROR
        assert fault.file == "/src/App.tsx"
        assert fault.line == 5
        assert fault.column == 11
        assert "Line: 5, Column: 11" in fault.raw_message
        assert "File: /src/App.tsx" in fault.raw_message

    def test_neutral_diagnostic(self, observer):
        fault = observer.observe(
            {"kind": "diagnostic", "message": "Unexpected token", "file": "src/main.tsx", "line": 2},
            0.0,
        )
        assert fault.kind is FaultKind.COMPILATION_ERROR
        assert fault.file == "src/main.tsx"
        assert fault.line == 2
        assert fault.column is None

    def test_module_not_found_classified(self, observer):
        fault = observer.observe(
            {"kind": "diagnostic", "message": "Module not found: Can't resolve 'lodash' in /src"},
            0.0,
        )
        assert fault.kind is FaultKind.MODULE_NOT_FOUND

    def test_location_extracted_from_text(self, observer):
        fault = observer.observe(
            {"kind": "diagnostic", "message": "SyntaxError: /src/App.tsx: Unexpected token (7:3)"},
            0.0,
        )
        assert fault.file == "/src/App.tsx"

    def test_missing_message_gets_placeholder(self, observer):
        fault = observer.observe({"kind": "diagnostic"}, 0.0)
        assert fault.raw_message == "Compilation failed"

    def test_negative_line_ignored(self, observer):
        fault = observer.observe({"kind": "diagnostic", "message": "boom", "line": -1}, 0.0)
        assert fault.line is None


# ===========================================================================
# notifications
# ===========================================================================


class TestNotifications:
    def test_error_notification(self, observer):
        fault = observer.observe(
            {"type": "action", "action": "notification", "notificationType": "error", "title": "Build failed"},
            0.0,
        )
        assert fault.kind is FaultKind.BUILD_FAILURE
        assert fault.raw_message == "Build failed"

    def test_info_notification_ignored(self, observer):
        event = {"type": "action", "action": "notification", "notificationType": "info", "title": "Hi"}
        assert observer.observe(event, 0.0) is None

    def test_neutral_notification(self, observer):
        fault = observer.observe({"kind": "notification", "level": "error", "message": "Bundler crashed"}, 0.0)
        assert fault.kind is FaultKind.BUILD_FAILURE


# ===========================================================================
# console
# ===========================================================================


class TestConsole:
    def test_native_console_error(self, observer):
        event = {
            "type": "console",
            "codesandbox": True,
            "log": [{"method": "error", "data": ["TypeError: x is not a function", "at App.tsx:4"]}],
        }
        fault = observer.observe(event, 0.0)
        assert fault.kind is FaultKind.RUNTIME_ERROR
        assert "TypeError: x is not a function" in fault.raw_message

    def test_console_without_keyword_ignored(self, observer):
        event = {"type": "console", "log": [{"method": "error", "data": ["something odd happened"]}]}
        assert observer.observe(event, 0.0) is None

    def test_console_log_method_ignored(self, observer):
        event = {"type": "console", "log": [{"method": "log", "data": ["Error: but only logged"]}]}
        assert observer.observe(event, 0.0) is None

    def test_neutral_console_warning(self, observer):
        fault = observer.observe({"kind": "console", "level": "warn", "message": "Warning: each child needs a key"}, 0.0)
        assert fault.kind is FaultKind.RUNTIME_ERROR

    def test_neutral_console_info_ignored(self, observer):
        assert observer.observe({"kind": "console", "level": "info", "message": "Error"}, 0.0) is None

    def test_console_missing_module(self, observer):
        fault = observer.observe(
            {"kind": "console", "level": "error", "message": "Error: Cannot find module 'axios'"}, 0.0,
        )
        assert fault.kind is FaultKind.MODULE_NOT_FOUND


# ===========================================================================
# irrelevant input
# ===========================================================================


class TestIrrelevant:
    @pytest.mark.parametrize("event", [
        {"type": "state", "state": {}},
        {"type": "action", "action": "refresh"},
        {},
    ])
    def test_ignored_shapes(self, observer, event):
        assert observer.observe(event, 0.0) is None

    def test_non_mapping_ignored(self, observer):
        assert observer.observe(["not", "an", "event"], 0.0) is None


# ===========================================================================
# location helpers
# ===========================================================================


class TestLocate:
    def test_inline_position(self):
        assert extract_position("Error in src/App.tsx:12:5 here") == ("src/App.tsx", 12, 5)

    def test_line_words(self):
        path, line, column = extract_position("Unexpected token\nLine: 8, Column: 2\nFile: /src/a.ts")
        assert path == "/src/a.ts"
        assert line == 8
        assert column == 2

    def test_no_path(self):
        assert extract_file_path("Something went wrong") is None

    def test_url_is_not_a_path(self):
        assert extract_file_path("see https://example.com/docs/index.html") is None

    def test_strip_extension(self):
        assert strip_source_extension("/src/components/Header.tsx") == "src/components/Header"

    def test_normalise(self):
        assert normalise_path("./src\\App.tsx") == "src/App.tsx"
        assert normalise_path("/src/App.tsx") == "src/App.tsx"
