# Routes package init
"""
Research Gate Backend — API Routes Package
============================================

What:  HTTP handlers, grouped into Resource Routers by URL prefix.
Why:   Each router owns one resource; the Dispatcher only picks the router.
How:   Fixed routes (health.py) are plain FastAPI routes. Everything under
       /api/<resource> goes through the catch-all route to the Dispatcher,
       which hands the request to the router registered for that prefix.

Route Inventory:
    - health.py:         GET  /                     (liveness sentinel)
                         GET  /api/health            (process + database status)
                         GET  /api/test              (static sentinel)
    - auth.py:           POST /api/auth/register|login|verify
    - posts.py:          GET|POST /api/posts, GET|PUT|DELETE /api/posts/{id},
                         POST /api/posts/{id}/like, POST /api/posts/{id}/comments
    - user.py:           GET|PUT /api/user/{id}, GET /api/user/{id}/posts
    - upload.py:         POST /api/upload            (files served at /uploads/*)
    - notifications.py:  GET|POST /api/notifications,
                         PUT /api/notifications/{id}/read, PUT /api/notifications/read-all

Design Principle:
    Routers return Ok(...) or raise ValidationError / InternalError.
    They never build HTTP responses themselves; the ResponsePipeline does.
"""
