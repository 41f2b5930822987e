"""
Unit tests for plugin dependency ordering.
"""

import pytest

from agent_runtime.domain.entities import Plugin
from agent_runtime.domain.services import PluginDependencyResolver


def names(plugins):
    return [p.name for p in plugins]


class TestPluginDependencyResolver:
    
    @pytest.fixture
    def resolver(self):
        return PluginDependencyResolver()
    
    def test_dependencies_register_first_regardless_of_priority(self, resolver):
        plugins = [
            Plugin(name="openai", priority=10, dependencies=("sql",)),
            Plugin(name="sql", priority=0),
        ]
        
        order, unresolved = resolver.resolve(plugins)
        
        assert names(order) == ["sql", "openai"]
        assert unresolved == {}
    
    def test_priority_then_submission_order(self, resolver):
        plugins = [
            Plugin(name="x", priority=1),
            Plugin(name="y", priority=5),
            Plugin(name="z", priority=5),
        ]
        
        order, _ = resolver.resolve(plugins)
        
        assert names(order) == ["y", "z", "x"]
    
    def test_missing_dependency_is_local(self, resolver):
        plugins = [
            Plugin(name="a", dependencies=("missing",)),
            Plugin(name="b"),
        ]
        
        order, unresolved = resolver.resolve(plugins)
        
        assert names(order) == ["b"]
        assert unresolved == {"a": {"missing"}}
    
    def test_dependents_of_unresolved_plugins_are_unresolved(self, resolver):
        plugins = [
            Plugin(name="a", dependencies=("missing",)),
            Plugin(name="c", dependencies=("a",)),
        ]
        
        order, unresolved = resolver.resolve(plugins)
        
        assert order == []
        assert set(unresolved) == {"a", "c"}
        assert unresolved["c"] == {"a"}
    
    def test_cycle_is_unresolved(self, resolver):
        plugins = [
            Plugin(name="a", dependencies=("b",)),
            Plugin(name="b", dependencies=("a",)),
            Plugin(name="free"),
        ]
        
        order, unresolved = resolver.resolve(plugins)
        
        assert names(order) == ["free"]
        assert set(unresolved) == {"a", "b"}
    
    def test_already_registered_dependencies_are_satisfied(self, resolver):
        plugins = [Plugin(name="late", dependencies=("bootstrap",))]
        
        order, unresolved = resolver.resolve(plugins, registered=["bootstrap"])
        
        assert names(order) == ["late"]
        assert unresolved == {}
