# taxfolio/reporting/__init__.py
