# Schemas package init
"""
Research Gate Backend — Schemas Package
=========================================

What:  Pydantic models for response envelopes and router request bodies.

Inventory:
    - response.py:      Success / Failure / NotFound, health and sentinel documents
    - auth.py:          registration, login and verification bodies
    - post.py:          post creation, update and comment bodies
    - user.py:          profile update body
    - notification.py:  notification creation body
"""
