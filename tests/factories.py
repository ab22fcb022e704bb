"""Shared test data."""

STORE_LAT = 13.7563
STORE_LNG = 100.5018

# About 0.5 km from the store
NEARBY = {"lat": 13.7600, "lng": 100.5050}
# About 83 km from the store, outside the 10 km radius
FAR_AWAY = {"lat": 14.5000, "lng": 100.5000}

ADDRESS = "12 Sukhumvit Soi 11, Bangkok"

# 1x1 PNG
PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d49484452000000010000000108060000001f15c489"
    "0000000d4944415478da63f8cfc0f01f0005000201a5dd8ea40000000049454e44ae426082"
)
