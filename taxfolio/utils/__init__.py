# taxfolio/utils/__init__.py
