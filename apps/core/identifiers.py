# apps/core/identifiers.py

"""
Identifier adapters

The relational backend hands out auto-increment integers, the document
backend hands out ObjectIds. Business logic only ever sees the canonical form
of the active backend:

- RelationalIdentifiers: canonical id is a positive ``int``
- DocumentIdentifiers:   canonical id is the 24-char hex ``str`` of an ObjectId

Both sides of a comparison always go through the same adapter, so an int is
never compared with a string.
"""

from abc import ABC, abstractmethod
from bson import ObjectId

from .exceptions import ValidationError

# Fields that reference another entity and must use the canonical id form
REFERENCE_FIELDS = ('owner_id', 'board_id', 'list_id', 'card_id', 'user_id')

# Backend bookkeeping that never leaves the store
INTERNAL_FIELDS = ('__v', '_lock', '_lock_at')


class IdentifierAdapter(ABC):
    """Single identifier type and equality rule for one backend"""

    kind = None

    @abstractmethod
    def normalize_id(self, raw):
        """Return the canonical id for ``raw`` or raise ValidationError"""

    def ids_equal(self, a, b):
        """True when ``a`` and ``b`` identify the same entity"""
        if a is None or b is None:
            return False
        try:
            return self.normalize_id(a) == self.normalize_id(b)
        except ValidationError:
            return False

    def normalize_document(self, doc):
        """
        Turn a raw backend record into the shape business logic expects.

        Returns None for None so store lookups can be passed straight through.
        """
        if doc is None:
            return None

        record = {}
        for key, value in doc.items():
            if key in INTERNAL_FIELDS:
                continue
            if key == '_id':
                record['id'] = self.normalize_id(value)
            elif key == 'id' or key in REFERENCE_FIELDS:
                record[key] = self.normalize_id(value) if value is not None else None
            elif isinstance(value, list):
                record[key] = [
                    self.normalize_document(item) if isinstance(item, dict) else item
                    for item in value
                ]
            else:
                record[key] = value
        return record

    def normalize_documents(self, docs):
        return [self.normalize_document(doc) for doc in docs]


class RelationalIdentifiers(IdentifierAdapter):
    kind = 'relational'

    def normalize_id(self, raw):
        if isinstance(raw, bool):
            raise ValidationError(f'Invalid id: {raw!r}')
        if isinstance(raw, int):
            value = raw
        elif isinstance(raw, str) and raw.strip().isascii() and raw.strip().isdigit():
            value = int(raw.strip())
        else:
            raise ValidationError(f'Invalid id: {raw!r}')

        if value < 1:
            raise ValidationError(f'Invalid id: {raw!r}')
        return value


class DocumentIdentifiers(IdentifierAdapter):
    kind = 'document'

    def normalize_id(self, raw):
        if isinstance(raw, ObjectId):
            return str(raw)
        if isinstance(raw, str) and ObjectId.is_valid(raw.strip()):
            return raw.strip().lower()
        raise ValidationError(f'Invalid id: {raw!r}')

    def to_native(self, raw):
        """ObjectId for queries against the document store"""
        return ObjectId(self.normalize_id(raw))
