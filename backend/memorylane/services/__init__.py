# Services package init
"""
Memory Lane Backend — Services Layer
=====================================

Service Inventory:
    - UploadService:     image upload validation (type, extension, size)
    - ImageStore:        abstract image storage contract, with
                         DatabaseImageStore, InlineImageStore and
                         FilesystemImageStore implementations
    - MemoryRepository:  transactional CRUD over memories + image store
    - SchemaManager:     startup migrations and integrity checks
"""
