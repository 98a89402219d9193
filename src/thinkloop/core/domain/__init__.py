"""Domain objects of a run and the loop engine driving it."""
