"""Drag-and-drop reordering of rows and columns.

Drop targets are insertion slots: slot ``j`` sits before item ``j`` and slot
``N`` after the last item.  Dropping item ``i`` on slot ``i`` or ``i + 1``
would leave it where it is, so those two slots are never valid drop zones.
"""

import logging

from mdtable_editor.tables.errors import PositionError
from mdtable_editor.tables.schema import DragDropState, TableData

logger = logging.getLogger(__name__)


class DragDropListener:
    """Receives drag-and-drop notifications; override the hooks you need."""

    def on_drag_start(self, drag_type: str, index: int) -> None:
        pass

    def on_drag_over(self, index: int, is_valid: bool) -> None:
        pass

    def on_drag_preview(self, preview: TableData) -> None:
        pass

    def on_drag_complete(self, drag_type: str, from_index: int, to_index: int) -> None:
        """``to_index`` is where the item ended up, not the slot it was dropped on."""

    def on_drag_cancel(self) -> None:
        pass


def drop_zones(drag_index: int, item_count: int) -> list[int]:
    """Slots an item can be dropped on: every slot except the two beside it."""
    return [slot for slot in range(item_count + 1) if slot not in (drag_index, drag_index + 1)]


def slot_to_final_index(drag_index: int, slot: int) -> int:
    """Final position of the dragged item when dropped on ``slot``."""
    return slot if slot < drag_index else slot - 1


class DragDropMixin:
    """Drag state machine for TableModel (Idle -> Dragging -> Idle).

    Expects ``_rows``, ``_headers``, ``_drag_state``, ``_drag_listeners``,
    ``clone()``, ``move_row()``, ``move_column()`` and ``get_table_data()``
    from the host class.
    """

    def add_drag_drop_listener(self, listener: DragDropListener) -> None:
        self._drag_listeners.append(listener)

    def remove_drag_drop_listener(self, listener: DragDropListener) -> None:
        if listener in self._drag_listeners:
            self._drag_listeners.remove(listener)

    def _notify_drag(self, hook: str, *args) -> None:
        for listener in list(self._drag_listeners):
            try:
                getattr(listener, hook)(*args)
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Drag-and-drop listener failed in %s", hook)

    def _item_count(self, drag_type: str) -> int:
        return len(self._rows) if drag_type == "row" else len(self._headers)

    def _start_drag(self, drag_type: str, index: int) -> None:
        count = self._item_count(drag_type)
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < count:
            raise PositionError(f"Invalid {drag_type} index for drag: {index} (valid range: 0-{count - 1})")
        if self._drag_state.is_dragging:
            logger.debug("Replacing active %s drag of %d", self._drag_state.drag_type, self._drag_state.drag_index)
        self._drag_state = DragDropState(
            is_dragging=True,
            drag_type=drag_type,
            drag_index=index,
            drop_zones=drop_zones(index, count),
            preview_data=self.get_table_data(),
        )
        self._notify_drag("on_drag_start", drag_type, index)

    def start_row_drag(self, index: int) -> None:
        self._start_drag("row", index)

    def start_column_drag(self, index: int) -> None:
        self._start_drag("column", index)

    def is_valid_drop_zone(self, slot: int) -> bool:
        return self._drag_state.is_dragging and not isinstance(slot, bool) and slot in self._drag_state.drop_zones

    def _preview_move(self, slot: int) -> TableData:
        """Snapshot of the table as it would look after dropping on ``slot``."""
        preview = self.clone()
        target = slot_to_final_index(self._drag_state.drag_index, slot)
        if self._drag_state.drag_type == "row":
            preview.move_row(self._drag_state.drag_index, target)
        else:
            preview.move_column(self._drag_state.drag_index, target)
        return preview.get_table_data()

    def update_drag_position(self, slot: int) -> bool:
        """Hover over ``slot``: refresh the preview without touching the model.

        Returns whether the slot is a valid drop zone.
        """
        if not self._drag_state.is_dragging:
            return False
        valid = self.is_valid_drop_zone(slot)
        preview = self._preview_move(slot) if valid else self.get_table_data()
        self._drag_state = self._drag_state.model_copy(update={"preview_data": preview})
        self._notify_drag("on_drag_over", slot, valid)
        if valid:
            self._notify_drag("on_drag_preview", preview)
        return valid

    def complete_drag_drop(self, slot: int) -> bool:
        """Drop on ``slot``.  An invalid slot cancels the drag and leaves the model as it was."""
        if not self._drag_state.is_dragging:
            return False
        if not self.is_valid_drop_zone(slot):
            logger.debug("Drop on invalid slot %s; cancelling drag", slot)
            self.cancel_drag_drop()
            return False

        drag_type = self._drag_state.drag_type
        from_index = self._drag_state.drag_index
        target = slot_to_final_index(from_index, slot)
        self._drag_state = DragDropState()
        if drag_type == "row":
            self.move_row(from_index, target)
        else:
            self.move_column(from_index, target)
        self._notify_drag("on_drag_complete", drag_type, from_index, target)
        return True

    def _cancel_stale_drag(self) -> None:
        """Cancel a drag whose drop zones no longer fit the table (rows or columns were added or removed)."""
        state = self._drag_state
        if not state.is_dragging:
            return
        count = self._item_count(state.drag_type)
        # Removing any item while the last one is dragged keeps the same zones
        if state.drag_index >= count or drop_zones(state.drag_index, count) != state.drop_zones:
            logger.info("Cancelling %s drag of %d: the table changed shape", state.drag_type, state.drag_index)
            self.cancel_drag_drop()

    def cancel_drag_drop(self) -> None:
        was_dragging = self._drag_state.is_dragging
        self._drag_state = DragDropState()
        if was_dragging:
            self._notify_drag("on_drag_cancel")

    def get_drag_drop_state(self) -> DragDropState:
        return self._drag_state.model_copy(deep=True)
