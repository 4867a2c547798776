"""Task series engine: recurring task generation, regeneration and renewal."""
