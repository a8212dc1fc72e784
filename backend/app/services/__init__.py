"""
Lyceum Backend — Services Layer
=================================

Service Inventory:
    - CrudService:     list/filter/sort/paginate and single-document CRUD for
                       any document model (collections.py holds one per collection)
    - FileService:     upload validation and local staging
    - GridFSStorage:   MongoDB GridFS destination
    - CloudStorage:    Google Cloud Storage destination and signed URLs
    - MediaService:    destination choice with fallback, media record upserts
    - media_types:     extension/MIME/size table per media type
"""
