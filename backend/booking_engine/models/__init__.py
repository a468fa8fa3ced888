from .tables import (
    Base,
    metadata,
    Appointments,
    Breaks,
    BusinessHours,
    Customers,
    Holidays,
    Locations,
    Providers,
    Services,
    WorkingHours,
    t_provider_locations,
    t_provider_services,
)

__all__ = [
    "Base",
    "metadata",
    "Appointments",
    "Breaks",
    "BusinessHours",
    "Customers",
    "Holidays",
    "Locations",
    "Providers",
    "Services",
    "WorkingHours",
    "t_provider_locations",
    "t_provider_services",
]
