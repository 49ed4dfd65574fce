from .app import DashboardServices, build_services, create_dashboard_app

__all__ = ["DashboardServices", "build_services", "create_dashboard_app"]
