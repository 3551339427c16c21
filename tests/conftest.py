"""Pytest fixtures shared by the storymap tests."""

import pytest


@pytest.fixture
def harness():
    """A loaded session over the checkout workspace."""
    from tests.core.graph_test_helpers import SessionHarness

    h = SessionHarness()
    h.load()
    return h


@pytest.fixture
def graph():
    """Hand-built hierarchy graph (see ``hierarchy_graph``)."""
    from tests.core.graph_test_helpers import hierarchy_graph

    return hierarchy_graph()
