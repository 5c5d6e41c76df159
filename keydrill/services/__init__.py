"""Services layer: drill orchestration and background statistics."""
