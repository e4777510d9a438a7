"""In-memory table editing.

Submodules:
  model     -- TableModel: cell/row/column CRUD, listeners, snapshots
  sorting   -- sorting engine mixed into TableModel
  dragdrop  -- drag-and-drop state machine mixed into TableModel
"""
