"""Administrative tool server for registering and inspecting mirrors."""
