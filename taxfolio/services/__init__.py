# taxfolio/services/__init__.py
