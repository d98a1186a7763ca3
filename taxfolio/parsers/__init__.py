# taxfolio/parsers/__init__.py
