# Services package init
"""
Research Gate Backend — Services Layer
========================================

What:  Work that routers delegate but that isn't about HTTP or MongoDB.

Service Inventory:
    - FileService: upload validation and date-organized storage
"""
