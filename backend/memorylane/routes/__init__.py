# Routes package init
"""
Memory Lane Backend — API Routes Package
=========================================

Route Inventory:
    - memories.py:  GET    /api/memories          (list, newest first)
                    GET    /api/memories/{id}     (single entry)
                    POST   /api/memories          (create, JSON or multipart)
                    PUT    /api/memories/{id}     (full replace, JSON or multipart)
                    DELETE /api/memories/{id}     (delete entry and image)
    - images.py:    GET    /api/images/{id}       (raw image bytes)
    - health.py:    GET    /health                (database ping)

Routes stay thin: they extract request data, call MemoryRepository, and
pick the status code. Business rules live in services/.
"""
