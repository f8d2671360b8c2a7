"""Remote hotspot trigger over Bluetooth LE."""
