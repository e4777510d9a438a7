"""Unit tests for drag-and-drop reordering of rows and columns."""

# pylint: disable=missing-class-docstring,missing-function-docstring

import pytest

from mdtable_editor.editing.dragdrop import DragDropListener, drop_zones, slot_to_final_index
from mdtable_editor.tables.errors import PositionError


class RecordingListener(DragDropListener):

    def __init__(self):
        self.events = []

    def on_drag_start(self, drag_type, index):
        self.events.append(("start", drag_type, index))

    def on_drag_over(self, index, is_valid):
        self.events.append(("over", index, is_valid))

    def on_drag_preview(self, preview):
        self.events.append(("preview", [row[0] for row in preview.rows]))

    def on_drag_complete(self, drag_type, from_index, to_index):
        self.events.append(("complete", drag_type, from_index, to_index))

    def on_drag_cancel(self):
        self.events.append(("cancel",))


# ===========================================================================
# Drop zones
# ===========================================================================


class TestDropZones:

    @pytest.mark.parametrize("count", [1, 2, 3, 5])
    def test_zone_law(self, count):
        for i in range(count):
            zones = drop_zones(i, count)
            for j in range(count + 1):
                assert (j in zones) == (j not in (i, i + 1))

    def test_slot_to_final_index(self):
        assert slot_to_final_index(1, 0) == 0
        assert slot_to_final_index(1, 3) == 2
        assert slot_to_final_index(0, 3) == 2

    def test_state_zones(self, sample_model):
        sample_model.start_row_drag(1)
        state = sample_model.get_drag_drop_state()
        assert state.is_dragging is True
        assert (state.drag_type, state.drag_index) == ("row", 1)
        assert state.drop_zones == [0, 3]
        assert sample_model.is_valid_drop_zone(0)
        assert not sample_model.is_valid_drop_zone(2)

    def test_no_zone_when_idle(self, sample_model):
        assert not sample_model.is_valid_drop_zone(0)


# ===========================================================================
# Completing and cancelling drags
# ===========================================================================


class TestRowDrag:

    def test_drop_next_to_itself_is_rejected(self, sample_model):
        before = sample_model.get_table_data()
        sample_model.start_row_drag(1)
        assert sample_model.complete_drag_drop(2) is False
        assert sample_model.get_table_data() == before
        assert sample_model.get_drag_drop_state().is_dragging is False

    def test_drop_at_top(self, sample_model):
        sample_model.start_row_drag(2)
        assert sample_model.complete_drag_drop(0) is True
        assert [row[0] for row in sample_model.rows] == ["Bob", "John", "Jane"]
        assert sample_model.get_drag_drop_state().is_dragging is False

    def test_drop_at_end(self, sample_model):
        sample_model.start_row_drag(0)
        assert sample_model.complete_drag_drop(3) is True
        assert [row[0] for row in sample_model.rows] == ["Jane", "Bob", "John"]

    def test_bad_index_stays_idle(self, sample_model):
        with pytest.raises(PositionError):
            sample_model.start_row_drag(3)
        assert sample_model.get_drag_drop_state().is_dragging is False

    def test_bool_index_rejected(self, sample_model):
        with pytest.raises(PositionError):
            sample_model.start_row_drag(True)
        assert sample_model.get_drag_drop_state().is_dragging is False

    def test_bool_slot_rejected(self, sample_model):
        sample_model.start_row_drag(2)
        assert sample_model.is_valid_drop_zone(True) is False
        assert sample_model.complete_drag_drop(False) is False
        assert [row[0] for row in sample_model.rows] == ["John", "Jane", "Bob"]

    def test_deleting_dragged_row_cancels_drag(self, sample_model):
        sample_model.start_row_drag(2)
        sample_model.delete_row(2)
        assert sample_model.get_drag_drop_state().is_dragging is False
        assert sample_model.complete_drag_drop(0) is False
        assert [row[0] for row in sample_model.rows] == ["John", "Jane"]

    def test_adding_row_cancels_drag(self, sample_model):
        sample_model.start_row_drag(0)
        sample_model.add_row()
        assert sample_model.complete_drag_drop(3) is False
        assert [row[0] for row in sample_model.rows] == ["John", "Jane", "Bob", ""]

    def test_cell_edit_keeps_drag(self, sample_model):
        sample_model.start_row_drag(0)
        sample_model.update_cell(1, 1, "31")
        assert sample_model.complete_drag_drop(3) is True
        assert sample_model.rows[1] == ["Bob", "35", "Chicago"]
        assert sample_model.rows[2] == ["John", "25", "NYC"]

    def test_complete_without_drag(self, sample_model):
        assert sample_model.complete_drag_drop(0) is False

    def test_cancel(self, sample_model):
        sample_model.start_row_drag(0)
        sample_model.cancel_drag_drop()
        assert sample_model.get_drag_drop_state().is_dragging is False
        assert sample_model.complete_drag_drop(3) is False

    def test_new_drag_replaces_active_one(self, sample_model):
        sample_model.start_row_drag(0)
        sample_model.start_column_drag(2)
        state = sample_model.get_drag_drop_state()
        assert (state.drag_type, state.drag_index) == ("column", 2)


class TestColumnDrag:

    def test_move_first_column_to_end(self, sample_model):
        sample_model.start_column_drag(0)
        assert sample_model.complete_drag_drop(3) is True
        assert sample_model.headers == ["Age", "City", "Name"]
        assert sample_model.get_row(0) == ["25", "NYC", "John"]

    def test_invalid_slot(self, sample_model):
        sample_model.start_column_drag(2)
        assert sample_model.complete_drag_drop(3) is False
        assert sample_model.headers == ["Name", "Age", "City"]

    def test_deleting_column_cancels_drag(self, sample_model):
        sample_model.start_column_drag(2)
        sample_model.delete_column(0)
        assert sample_model.complete_drag_drop(0) is False
        assert sample_model.headers == ["Age", "City"]

    def test_deleting_column_before_last_cancels_drag(self, sample_model):
        sample_model.start_column_drag(2)
        sample_model.delete_column(1)
        assert sample_model.get_drag_drop_state().is_dragging is False
        assert sample_model.complete_drag_drop(1) is False
        assert sample_model.headers == ["Name", "City"]


# ===========================================================================
# Preview and listeners
# ===========================================================================


class TestPreview:

    def test_preview_does_not_touch_model(self, sample_model):
        sample_model.start_row_drag(0)
        assert sample_model.update_drag_position(3) is True
        preview = sample_model.get_drag_drop_state().preview_data
        assert [row[0] for row in preview.rows] == ["Jane", "Bob", "John"]
        assert [row[0] for row in sample_model.rows] == ["John", "Jane", "Bob"]

    def test_invalid_hover_shows_current_table(self, sample_model):
        sample_model.start_row_drag(0)
        assert sample_model.update_drag_position(1) is False
        preview = sample_model.get_drag_drop_state().preview_data
        assert [row[0] for row in preview.rows] == ["John", "Jane", "Bob"]

    def test_hover_when_idle(self, sample_model):
        assert sample_model.update_drag_position(0) is False


class TestListeners:

    def test_event_sequence(self, sample_model):
        listener = RecordingListener()
        sample_model.add_drag_drop_listener(listener)
        sample_model.start_row_drag(2)
        sample_model.update_drag_position(2)
        sample_model.update_drag_position(0)
        sample_model.complete_drag_drop(0)
        assert listener.events == [
            ("start", "row", 2),
            ("over", 2, False),
            ("over", 0, True),
            ("preview", ["Bob", "John", "Jane"]),
            ("complete", "row", 2, 0),
        ]

    def test_complete_reports_final_index(self, sample_model):
        listener = RecordingListener()
        sample_model.add_drag_drop_listener(listener)
        sample_model.start_row_drag(0)
        sample_model.complete_drag_drop(3)
        assert listener.events[-1] == ("complete", "row", 0, 2)

    def test_shape_change_notifies_cancel(self, sample_model):
        listener = RecordingListener()
        sample_model.add_drag_drop_listener(listener)
        sample_model.start_column_drag(1)
        sample_model.add_column()
        assert listener.events == [("start", "column", 1), ("cancel",)]

    def test_invalid_drop_notifies_cancel(self, sample_model):
        listener = RecordingListener()
        sample_model.add_drag_drop_listener(listener)
        sample_model.start_row_drag(1)
        sample_model.complete_drag_drop(1)
        assert listener.events[-1] == ("cancel",)

    def test_failing_listener_is_isolated(self, sample_model):
        class Broken(DragDropListener):
            def on_drag_start(self, drag_type, index):
                raise RuntimeError("boom")

        recorder = RecordingListener()
        sample_model.add_drag_drop_listener(Broken())
        sample_model.add_drag_drop_listener(recorder)
        sample_model.start_row_drag(0)
        assert recorder.events == [("start", "row", 0)]

    def test_remove_listener(self, sample_model):
        listener = RecordingListener()
        sample_model.add_drag_drop_listener(listener)
        sample_model.remove_drag_drop_listener(listener)
        sample_model.start_row_drag(0)
        assert listener.events == []
