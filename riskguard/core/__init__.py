"""Core risk logic: behavior profiling, threat analysis, decisions and maintenance jobs."""
