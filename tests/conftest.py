"""
conftest.py — Shared pytest configuration and fixtures

This file is automatically loaded by pytest.
"""

import pytest
import sys
from pathlib import Path

# Ensure the project root is in the path for imports (handlers package, config/)
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))


# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


# ============================================================================
# Fixtures available to all tests
# ============================================================================

@pytest.fixture
def bus_config_path():
    """The sample bus config shipped with the repo."""
    return project_root / "config" / "bus.yaml"


@pytest.fixture
def page_html():
    """A small HTML page for crawler tests."""
    return """<!DOCTYPE html>
<html>
  <head><title>Test page</title></head>
  <body>
    <div id="parent">
      <div id="child">
        <div id="grandchild"></div>
      </div>
    </div>
    <ul>
      <li class="first">One</li>
      <li>Two</li>
      <li class="last">Three</li>
    </ul>
    <a href="/one" id="link1">Foo bar</a>
    <a href="/two"><img alt="Fabien's Bar" src="bar.png"></a>
    <input type="submit" value="Send" id="send">
    <button name="go">Go now</button>
    <p>Hello <b>World</b></p>
  </body>
</html>"""
