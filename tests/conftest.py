from __future__ import annotations

import pytest

from factories import make_section
from track_replay.models import Section


@pytest.fixture
def five_entry_section() -> Section:
    return make_section([10, 10, 80, 10, 10])


@pytest.fixture
def ten_entry_section() -> Section:
    return make_section([10.0] * 10)
