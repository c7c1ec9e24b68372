"""Tests for autofix.response_parser -- fix and analysis parsing chains."""

import json

import pytest

from autofix.errors import RAW_PREVIEW_CHARS, ResponseParseError
from autofix.response_parser import (
    DEFAULT_EXPLANATION,
    clean_content,
    extract_json_object,
    parse_analysis,
    parse_file_blocks,
    parse_file_markers,
    parse_fix_response,
    parse_json_files,
    strip_fences,
)

from tests.conftest import make_analysis, make_fix


# ===========================================================================
# Text cleanup
# ===========================================================================


class TestStripFences:
    def test_plain_text_unchanged(self):
        assert strip_fences("hello") == "hello"

    def test_fenced_block(self):
        assert strip_fences("```json\n{\"a\": 1}\n```") == '{"a": 1}'

    def test_prose_around_fence_kept(self):
        assert strip_fences("Here:\n```\nbody\n```\nDone.") == "Here:\nbody\nDone."

    def test_unclosed_fence_unchanged(self):
        text = "```python\nprint(1)"
        assert strip_fences(text) == text


class TestCleanContent:
    def test_removes_fences_and_artifacts(self):
        raw = "```tsx\n<ctrl42>export const a = 1;<end>\n---\n```\n"
        assert clean_content(raw) == "export const a = 1;"

    def test_keeps_ordinary_dashes(self):
        assert clean_content("const s = 'a---b';") == "const s = 'a---b';"


class TestExtractJsonObject:
    def test_embedded_in_prose(self):
        assert extract_json_object('Sure! {"files": {}} Hope that helps.') == {"files": {}}

    def test_trailing_braces_in_prose(self):
        text = 'Result: {"explanation": "x", "files": {"/a.ts": "1"}} and then {oops}'
        assert extract_json_object(text)["explanation"] == "x"

    def test_none_when_absent(self):
        assert extract_json_object("no json here") is None
        assert extract_json_object("") is None


# ===========================================================================
# Fix strategies
# ===========================================================================


class TestParseFixResponse:
    def test_json_strategy(self):
        proposal = parse_fix_response(make_fix({"/src/App.tsx": "fixed"}, "Renamed import"))
        assert proposal.strategy == "json_files"
        assert proposal.files == {"/src/App.tsx": "fixed"}
        assert proposal.explanation == "Renamed import"

    def test_json_without_explanation_uses_default(self):
        proposal = parse_json_files(json.dumps({"files": {"/a.ts": "x"}}))
        assert proposal.explanation == DEFAULT_EXPLANATION

    def test_json_without_files_falls_through(self):
        assert parse_json_files('{"explanation": "nothing"}') is None

    def test_file_blocks_fallback(self):
        raw = (
            "I could not produce JSON, here are the files.\n"
            "=== /src/App.tsx ===\n"
            "```tsx\n"
            "export default function App() { return null; }\n"
            "```\n"
            "=== /src/main.tsx ===\n"
            "import App from './App';\n"
        )
        proposal = parse_fix_response(raw)
        assert proposal.strategy == "file_blocks"
        assert proposal.files["/src/App.tsx"] == "export default function App() { return null; }"
        assert proposal.files["/src/main.tsx"] == "import App from './App';"
        assert proposal.explanation == DEFAULT_EXPLANATION

    def test_file_markers_fallback(self):
        raw = (
            "FILE: /src/App.tsx\n"
            "CONTENT:\n"
            "export const App = () => null;\n"
            "---\n"
            "FILE: /src/util.ts\n"
            "CONTENT:\n"
            "export const n = 1;\n"
        )
        proposal = parse_fix_response(raw)
        assert proposal.strategy == "file_markers"
        assert proposal.files == {
            "/src/App.tsx": "export const App = () => null;",
            "/src/util.ts": "export const n = 1;",
        }

    def test_empty_blocks_ignored(self):
        assert parse_file_blocks("=== /src/a.ts ===\n\n") is None
        assert parse_file_markers("FILE: /src/a.ts\nCONTENT:\n```\n```") is None

    def test_free_text_raises(self):
        raw = "I think the problem is your import. Try renaming it." * 30
        with pytest.raises(ResponseParseError) as exc_info:
            parse_fix_response(raw)
        err = exc_info.value
        assert err.parser_name == "fix_response"
        assert len(err.raw_preview) == RAW_PREVIEW_CHARS
        assert err.to_dict()["raw_output_length"] == len(raw)

    def test_custom_strategy_chain(self):
        with pytest.raises(ResponseParseError):
            parse_fix_response("=== /a.ts ===\nx", strategies=[parse_json_files])


# ===========================================================================
# Analysis
# ===========================================================================


class TestParseAnalysis:
    def test_nested_layout(self):
        analysis = parse_analysis(make_analysis())
        assert analysis.error_type == "module"
        assert analysis.location.file == "/src/App.tsx"
        assert analysis.location.line == 3
        assert analysis.why_chain == ["Header is undefined", "The import path is wrong"]
        assert analysis.fundamental_issue == "Header component is imported but never exported"
        assert analysis.strategy == "proper_fix"
        assert analysis.files_to_modify == ["/src/App.tsx"]
        assert analysis.confidence == pytest.approx(0.9)

    @pytest.mark.parametrize("selected, expected", [
        ("quickPatch", "quick_patch"),
        ("Proper Fix", "proper_fix"),
        ("refactor", "refactor"),
        ("something else", "proper_fix"),
    ])
    def test_strategy_aliases(self, selected, expected):
        assert parse_analysis(make_analysis(strategy=selected)).strategy == expected

    def test_flat_layout_in_fence(self):
        raw = "```json\n" + json.dumps({
            "rootCause": {"fundamentalIssue": "Missing export", "whyChain": "single reason"},
            "fixStrategy": "refactor",
        }) + "\n```"
        analysis = parse_analysis(raw)
        assert analysis.fundamental_issue == "Missing export"
        assert analysis.why_chain == ["single reason"]
        assert analysis.strategy == "refactor"
        assert analysis.confidence is None

    def test_out_of_range_confidence_dropped(self):
        raw = json.dumps({"rootCause": {"fundamentalIssue": "x"}, "confidence": 7})
        assert parse_analysis(raw).confidence is None

    def test_no_json_raises(self):
        with pytest.raises(ResponseParseError, match="no JSON object found"):
            parse_analysis("The root cause is a typo.")

    def test_unrelated_json_raises(self):
        with pytest.raises(ResponseParseError, match="missing errorAnalysis structure"):
            parse_analysis('{"hello": "world"}')
