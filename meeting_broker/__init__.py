"""Meeting broker: bookings on a shared Google Calendar."""
