"""Tests for procedural memory compression."""

import pytest

from tab_agent.core.config import MemoryConfig
from tab_agent.core.memory import MAX_FINDINGS_CHARS, ProceduralMemory


def fill(memory: ProceduralMemory, count: int) -> None:
    for i in range(count):
        memory.add_message("action", f"act{i + 1}", f"result {i + 1}")


class TestProceduralMemoryWindow:
    """Test the raw entry window."""

    @pytest.fixture
    def memory(self):
        return ProceduralMemory(MemoryConfig())

    def test_window_never_exceeds_capacity(self, memory):
        """Window stays at or below ten entries no matter how many are added."""
        for i in range(40):
            memory.add_message("planner", "plan", f"step {i}")
            assert len(memory.entries) <= 10

    def test_no_compression_at_capacity(self, memory):
        """Exactly ten entries fit without producing a summary."""
        fill(memory, 10)

        assert len(memory.entries) == 10
        assert memory.summaries == []

    def test_overflow_produces_one_summary_and_trims(self, memory):
        """The eleventh entry folds the oldest four into a summary and keeps six."""
        fill(memory, 11)

        assert len(memory.summaries) == 1
        summary = memory.summaries[0]
        assert summary.steps == "1-4"
        assert summary.actions == "act1, act2, act3, act4"
        assert summary.findings == "result 1 | result 2 | result 3 | result 4"

        assert len(memory.entries) == 6
        assert [e.step for e in memory.entries] == [6, 7, 8, 9, 10, 11]

    def test_summary_ring_keeps_three(self, memory):
        """Only the three most recent summaries survive repeated overflow."""
        fill(memory, 26)

        summaries = memory.summaries
        assert len(summaries) == 3
        assert summaries[0].steps == "6-9"
        assert summaries[-1].steps == "16-19"

    def test_step_counter_keeps_counting(self, memory):
        """Compression never resets the step counter."""
        fill(memory, 15)

        assert memory.current_step == 15
        assert memory.get_context()["current_step"] == 15


class TestProceduralMemoryContext:
    """Test the context surface handed to agents."""

    def test_context_has_three_recent_entries(self):
        """Context exposes the last three raw entries, oldest first."""
        memory = ProceduralMemory()
        fill(memory, 5)

        context = memory.get_context()
        assert [m["action"] for m in context["recent_messages"]] == ["act3", "act4", "act5"]
        assert context["procedural_summaries"] == []

    def test_non_string_content_is_json(self):
        """Dict content is stored as sorted-key JSON."""
        memory = ProceduralMemory()
        entry = memory.add_message("navigator", "click", {"index": 3, "action": "click"})

        assert entry.content == '{"action": "click", "index": 3}'

    def test_long_findings_are_clipped(self):
        """Summary findings are clipped with an ellipsis."""
        memory = ProceduralMemory()
        for _ in range(11):
            memory.add_message("action", "wait", "x" * 400)

        findings = memory.summaries[0].findings
        assert len(findings) == MAX_FINDINGS_CHARS
        assert findings.endswith("...")

    def test_clear_resets_everything(self):
        """clear() drops entries, summaries and the step counter."""
        memory = ProceduralMemory()
        fill(memory, 12)
        memory.clear()

        assert memory.entries == []
        assert memory.summaries == []
        assert memory.current_step == 0


class TestMemoryConfigValidation:
    """Test memory size validation."""

    def test_retain_must_be_below_window(self):
        """Retaining the whole window is rejected."""
        with pytest.raises(ValueError):
            MemoryConfig(window_size=5, retain_after_compress=5)

    def test_batch_cannot_exceed_window(self):
        """A batch larger than the window is rejected."""
        with pytest.raises(ValueError):
            MemoryConfig(window_size=5, retain_after_compress=2, compress_batch=6)
