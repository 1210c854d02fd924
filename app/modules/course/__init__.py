"""Users, courses and enrollments read by the certificate worker."""
