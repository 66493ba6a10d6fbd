"""Display synchronization engine between Cider and a control surface."""
