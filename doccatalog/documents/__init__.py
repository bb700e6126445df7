"""
doccatalog Documents — catalog records, the documents query slot, the
refinement pipeline and the write service.

Submodules are imported directly (``from doccatalog.documents.models import
Document``); the store layer depends on the models, so nothing is
re-exported here.
"""
