# taxfolio/engine/__init__.py
