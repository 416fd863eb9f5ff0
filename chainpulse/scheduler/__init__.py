# Portfolio snapshot job and its hourly scheduler.
