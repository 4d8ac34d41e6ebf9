"""
Ride management service - ride registry and membership coordination.

This module handles:
    - Creating, fetching and listing rides
    - Lifecycle transitions (open/full/departed/cancelled)
    - Joining (directly or by code), leaving and deleting rides
"""

from .registry import (
    create_ride,
    get_ride,
    list_rides,
    rides_for_user,
    update_status,
    mark_departed_rides,
    seat_capacity_for,
)

from .membership import (
    RideResult,
    join_ride,
    join_by_code,
    leave_ride,
    delete_ride,
)

__all__ = [
    # Registry
    "create_ride",
    "get_ride",
    "list_rides",
    "rides_for_user",
    "update_status",
    "mark_departed_rides",
    "seat_capacity_for",
    # Membership
    "RideResult",
    "join_ride",
    "join_by_code",
    "leave_ride",
    "delete_ride",
]
