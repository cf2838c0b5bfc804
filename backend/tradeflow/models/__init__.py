from .tenancy import Business, Preparer
from .customers import Customer
from .documents import Document, DocumentLine, DocumentSequence, DOCUMENT_CLASSES
from .jobs import Job

__all__ = [
    'Business', 'Preparer',
    'Customer',
    'Document', 'DocumentLine', 'DocumentSequence', 'DOCUMENT_CLASSES',
    'Job',
]
