"""Tests for the selector knowledge store."""

import pytest

from linkedin_agent.models import Feature
from linkedin_agent.selector_store import (
    MAX_SELECTORS,
    SEED_SELECTORS,
    InMemorySelectorStore,
    sanitize_selectors,
)


class TestSanitize:
    """Tests for candidate sanitisation."""

    def test_drops_invalid_entries(self) -> None:
        """Non-strings, blanks and over-long strings are dropped; the rest trimmed and deduped."""
        raw = [" .a ", ".b", ".a", 42, None, "", "   ", "x" * 201, ".b ", ".c"]
        assert sanitize_selectors(raw) == [".a", ".b", ".c"]

    def test_caps_at_twelve(self) -> None:
        raw = [f".item-{i}" for i in range(20)]
        assert sanitize_selectors(raw) == raw[:MAX_SELECTORS]

    def test_accepts_exactly_200_chars(self) -> None:
        long_ok = "y" * 200
        assert sanitize_selectors([long_ok]) == [long_ok]

    def test_non_list_input(self) -> None:
        assert sanitize_selectors(".a") == []
        assert sanitize_selectors(None) == []


class TestInMemorySelectorStore:
    """Tests for InMemorySelectorStore."""

    def test_every_feature_has_seed_entry(self, store: InMemorySelectorStore) -> None:
        for feature in Feature:
            entry = store.entry(feature)
            assert entry.reason == "seed"
            assert entry.selectors == list(SEED_SELECTORS[feature])

    def test_get_without_save_returns_seeds(self, store: InMemorySelectorStore) -> None:
        """With no prior save the result is exactly the deduplicated seed list."""
        for feature in Feature:
            assert store.get_selectors(feature) == list(dict.fromkeys(SEED_SELECTORS[feature]))

    def test_get_accepts_string_feature(self, store: InMemorySelectorStore) -> None:
        assert store.get_selectors("read_chat.root") == store.get_selectors(Feature.CHAT_ROOT)

    def test_save_sanitizes(self, store: InMemorySelectorStore) -> None:
        raw = [" .learned ", 7, "", "z" * 250, ".learned", ".other"]
        saved = store.save_selectors(Feature.CHAT_ROOT, raw, "snapshot")

        assert saved == [".learned", ".other"]
        entry = store.entry(Feature.CHAT_ROOT)
        assert entry.selectors == [".learned", ".other"]
        assert entry.reason == "snapshot"

    def test_merge_puts_learned_before_seeds(self, store: InMemorySelectorStore) -> None:
        learned = [".new-root", ".msg-thread"]
        store.save_selectors(Feature.CHAT_ROOT, learned, "agent")

        merged = store.get_selectors(Feature.CHAT_ROOT)
        expected = list(dict.fromkeys([*learned, *SEED_SELECTORS[Feature.CHAT_ROOT]]))[:MAX_SELECTORS]
        assert merged == expected
        assert merged[:2] == learned
        assert merged.count(".msg-thread") == 1

    def test_merge_is_capped(self, store: InMemorySelectorStore) -> None:
        learned = [f".learned-{i}" for i in range(12)]
        store.save_selectors(Feature.CHAT_ITEMS, learned, "agent")
        assert store.get_selectors(Feature.CHAT_ITEMS) == learned

    def test_empty_save_is_noop(self, store: InMemorySelectorStore) -> None:
        store.save_selectors(Feature.CHAT_ROOT, [".kept"], "first")
        before = store.entry(Feature.CHAT_ROOT)

        assert store.save_selectors(Feature.CHAT_ROOT, ["", 3, None], "second") == []
        assert store.save_selectors(Feature.CHAT_ROOT, "not-a-list", "third") == []
        assert store.entry(Feature.CHAT_ROOT) is before

    def test_unknown_feature_save_is_noop(self, store: InMemorySelectorStore) -> None:
        assert store.save_selectors("profile.unknown", [".a"], "agent") == []

    def test_unknown_feature_get_raises(self, store: InMemorySelectorStore) -> None:
        with pytest.raises(ValueError):
            store.get_selectors("profile.unknown")

    def test_last_writer_wins(self, store: InMemorySelectorStore) -> None:
        store.save_selectors(Feature.SEND_BUTTON, [".first"], "a")
        store.save_selectors(Feature.SEND_BUTTON, [".second"], "b")
        assert store.entry(Feature.SEND_BUTTON).selectors == [".second"]
        assert ".first" not in store.get_selectors(Feature.SEND_BUTTON)

    def test_instances_are_isolated(self) -> None:
        a, b = InMemorySelectorStore(), InMemorySelectorStore()
        a.save_selectors(Feature.CHAT_ROOT, [".only-in-a"], "agent")
        assert ".only-in-a" not in b.get_selectors(Feature.CHAT_ROOT)

    def test_seed_table_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            SEED_SELECTORS[Feature.CHAT_ROOT] = (".x",)
