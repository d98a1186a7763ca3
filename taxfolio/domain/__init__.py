# taxfolio/domain/__init__.py
# Domain types shared by the processors, reports and services.
