"""External collaborators of the stamp engine"""

from foodpassport.integrations.fuzzy_matcher import HttpFuzzyMatcher, LocalFuzzyMatcher, build_fuzzy_matcher

__all__ = ["HttpFuzzyMatcher", "LocalFuzzyMatcher", "build_fuzzy_matcher"]
