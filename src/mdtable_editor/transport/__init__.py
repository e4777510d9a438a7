"""Message protocol between the core and editing surfaces.

Submodules:
  messages       -- inbound command union and outbound message records
  channel        -- retrying send and connection health / ping scheduling
  collaborators  -- undo history, file dialog and transcoder interfaces
  session        -- per-document session: ordered dispatch, recovery, broadcast
"""
