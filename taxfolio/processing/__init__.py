# taxfolio/processing/__init__.py
