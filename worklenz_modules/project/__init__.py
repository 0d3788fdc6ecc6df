"""Teams, projects, tasks and work logs (``worklenz_modules.project``)."""
