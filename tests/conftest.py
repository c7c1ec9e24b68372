"""Shared test fixtures — reduces boilerplate across test modules.

Provides:
- ``set_test_config`` — autouse fixture that patches common settings
- ``FakeOracle`` / ``make_analysis`` / ``make_fix`` — scripted oracle replies
- ``sample_files`` — a small React project with a broken import
- ``test_client`` — pre-built TestClient against the app
"""

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from autofix import ProjectFile
from app.main import app


# ---------------------------------------------------------------------------
# Environment patching
# ---------------------------------------------------------------------------

_SETTINGS_PATCHES: dict[str, object] = {
    "app.config.settings.FRONTEND_URL": "http://localhost:5173",
    "app.config.settings.LLM_PROVIDER": "anthropic",
    "app.config.settings.ANTHROPIC_API_KEY": "test-key",
    "app.config.settings.OPENAI_API_KEY": "",
    "app.config.settings.LLM_MODEL": "",
    "app.config.settings.LOG_FILE": "",
}


@pytest.fixture(autouse=True)
def set_test_config(monkeypatch):
    """Patch common application settings for a safe test environment.

    This is ``autouse=True`` so every test automatically gets a
    deterministic, non-production configuration.
    """
    for target, value in _SETTINGS_PATCHES.items():
        monkeypatch.setattr(target, value)


# ---------------------------------------------------------------------------
# Oracle fakes
# ---------------------------------------------------------------------------


def make_analysis(
    fundamental_issue: str = "Header component is imported but never exported",
    strategy: str = "properFix",
    files: tuple[str, ...] = ("/src/App.tsx",),
) -> str:
    """A nested ``errorAnalysis`` reply as the analysis call returns it."""
    return json.dumps({
        "errorAnalysis": {
            "identification": {
                "errorMessage": "Cannot find name 'Header'",
                "errorType": "module",
                "location": {"file": "/src/App.tsx", "line": 3, "function": "App"},
            },
            "rootCause": {
                "symptom": "Compilation fails in App.tsx",
                "whyChain": ["Header is undefined", "The import path is wrong"],
                "fundamentalIssue": fundamental_issue,
            },
            "fixStrategy": {"selected": strategy, "reasoning": "Fix the import at its source"},
            "implementation": {"filesToModify": [{"path": p, "changes": "fix import"} for p in files]},
        },
        "confidence": {"rootCauseIdentification": 0.9},
    })


def make_fix(files: dict[str, str], explanation: str = "Fixed the Header import") -> str:
    """A JSON fix reply wrapped in a markdown fence, as models tend to send it."""
    return "```json\n" + json.dumps({"explanation": explanation, "files": files}) + "\n```"


class FakeOracle:
    """Replays scripted replies, one per call, chunked like a real stream.

    An ``Exception`` instance in *replies* is raised instead of streamed.
    When *block_on* is the index of a call, that call hangs until
    cancelled (used to exercise aborts mid-stream).
    """

    def __init__(self, replies, *, block_on: int | None = None, chunk_size: int = 40):
        self.replies = list(replies)
        self.block_on = block_on
        self.chunk_size = chunk_size
        self.requests = []
        self.started = asyncio.Event()
        self.cancelled = False

    async def stream(self, request):
        index = len(self.requests)
        self.requests.append(request)
        if index == self.block_on:
            self.started.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        reply = self.replies[index]
        if isinstance(reply, Exception):
            raise reply
        for i in range(0, len(reply), self.chunk_size):
            await asyncio.sleep(0)
            yield reply[i:i + self.chunk_size]


# ---------------------------------------------------------------------------
# Project fixtures
# ---------------------------------------------------------------------------

APP_TSX = """import React from 'react';
import { Header } from './components/Head';

export default function App() {
  return <Header title="Hello" />;
}
"""

HEADER_TSX = """import React from 'react';

export function Header({ title }: { title: string }) {
  return <h1>{title}</h1>;
}
"""

MAIN_TSX = """import React from 'react';
import ReactDOM from 'react-dom/client';
import App from './App';

ReactDOM.createRoot(document.getElementById('root')!).render(<App />);
"""

FIXED_APP_TSX = APP_TSX.replace("./components/Head'", "./components/Header'")


@pytest.fixture
def sample_files() -> list[ProjectFile]:
    return [
        ProjectFile(path="/src/App.tsx", content=APP_TSX),
        ProjectFile(path="/src/components/Header.tsx", content=HEADER_TSX),
        ProjectFile(path="/src/main.tsx", content=MAIN_TSX),
    ]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def test_client() -> TestClient:
    """A fresh ``TestClient`` instance wrapping the FastAPI app."""
    return TestClient(app)
