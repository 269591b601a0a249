"""Free/busy and booking listing."""
