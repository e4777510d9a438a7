"""Writing edited tables back into their source documents.

Submodules:
  patching        -- pure line-range replacement on document text
  document_store  -- async document read/patch (files on disk, in memory)
  synchronizer    -- line-range patching and index-based table updates
"""
