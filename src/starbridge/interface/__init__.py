"""Terminal front end: configuration, rendering and the command line."""
