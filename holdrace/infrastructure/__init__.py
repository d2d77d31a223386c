"""
Infrastructure layer - external system integrations.
Keeps flow logic clean from transport and file-format details.
"""

from .booking_api import ApiResponse, BookingApiClient, build_http_client
from .datasets import load_seat_ids, load_tokens

__all__ = ['ApiResponse', 'BookingApiClient', 'build_http_client', 'load_seat_ids', 'load_tokens']
