"""Shared test fixtures for the Code Repair Loop."""

from collections.abc import Callable, Iterator
from unittest.mock import AsyncMock

import pytest

from repair_loop.models.errors import (
    AnalyzedError,
    DetectedError,
    ErrorCategory,
    ErrorStage,
)
from repair_loop.utils.metrics import MetricsRegistry

# Line 14 is missing a closing parenthesis
CODE_WITH_IMPORTS = """import { useState, useEffect } from 'react';
import { Heart, Star, Plus } from 'lucide-react';
import { format } from 'date-fns';

function App() {
  const [count, setCount] = useState(0);
  const [date, setDate] = useState(new Date());

  useEffect(() => {
    console.log('Count changed:', count);
  }, [count]);

  const handleClick = () => {
    setCount(count + 1;
  };

  return (
    <div className="p-4">
      <Heart className="text-red-500" />
      <span>{format(date, 'yyyy-MM-dd')}</span>
      <button onClick={handleClick}>
        Count: {count}
      </button>
    </div>
  );
}
"""

VALID_CODE = """function App() {
  const [count, setCount] = useState(0);

  const handleClick = () => {
    setCount(count + 1);
  };

  return (
    <div className="p-4">
      <button onClick={handleClick}>
        Count: {count}
      </button>
    </div>
  );
}
"""


def make_error(
    message: str = "SyntaxError: Unexpected token, expected ','",
    category: ErrorCategory = ErrorCategory.SYNTAX,
    line: int | None = 14,
    column: int | None = None,
    source_line: str | None = None,
) -> DetectedError:
    """Build a DetectedError without going through detection."""
    return DetectedError(
        id="err_test_1",
        stage=ErrorStage.BUILD,
        message=message,
        analysis=AnalyzedError(
            original_message=message,
            category=category,
            root_cause="Code structure violation or invalid syntax",
            suggestion="Check for missing brackets, semicolons, or invalid keywords.",
            line=line,
            column=column,
        ),
        line=line,
        column=column,
        source_line=source_line,
    )


@pytest.fixture(autouse=True)
def reset_metrics() -> Iterator[None]:
    """Give every test a fresh metrics registry."""
    MetricsRegistry.reset()
    yield
    MetricsRegistry.reset()


@pytest.fixture
def code_with_imports() -> str:
    """TSX component with three imports and a syntax error on line 14."""
    return CODE_WITH_IMPORTS


@pytest.fixture
def valid_code() -> str:
    """TSX component without errors."""
    return VALID_CODE


@pytest.fixture
def syntax_error() -> DetectedError:
    """Syntax error reported on line 14."""
    return make_error()


@pytest.fixture
def error_factory() -> Callable[..., DetectedError]:
    """Factory for DetectedErrors with chosen message, category and location."""
    return make_error


@pytest.fixture
def completion() -> AsyncMock:
    """Completion collaborator returning a fenced code reply."""
    mock = AsyncMock()
    mock.complete.return_value = "```tsx\n    setCount(count + 1);\n```"
    return mock

