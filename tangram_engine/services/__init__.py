"""Domain services: geometry, coordinate spaces, placement validation and sessions."""
