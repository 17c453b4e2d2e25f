"""Import services: row mapping, batch scheduling, orchestration and reporting."""
