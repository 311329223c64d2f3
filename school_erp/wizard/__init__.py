"""Multi-step setup wizards kept in the Flask session."""
