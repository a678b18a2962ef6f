import pytest

from valvematch.config import MatcherConfig, build_tag_regex
from valvematch.patterns import Pattern


@pytest.fixture
def config():
	return MatcherConfig(allowed_layers=frozenset({"VALVE"}))


@pytest.fixture
def tag_regex():
	return build_tag_regex(["FV", "XV"])


@pytest.fixture
def patterns():
	return [
		Pattern.from_dict({"name": "GATE", "counts": {"LINE": 2, "CIRCLE": 1}, "attributes": {"VALVE_CLASS": "ISOLATION"}}),
		Pattern.from_dict({"name": "GLOBE", "counts": {"LINE": 2, "CIRCLE": 2}}),
	]
