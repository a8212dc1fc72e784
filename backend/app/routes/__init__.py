"""
Lyceum Backend — API Routes Package
=====================================

Route Inventory:
    - health.py:  GET /, GET /health
    - crud.py:    create_crud_router(), the generic collection surface mounted
                  at /api/v1/{users,appointments,lectures,media}
    - media.py:   GET/POST /api/v1/media, GET /api/v1/media/{id}
                  (mounted before the generic media router)
    - files.py:   GridFS streaming under /uploads, /download and /{type}

Routes stay thin: parse the request, call a service, shape the response.
"""
