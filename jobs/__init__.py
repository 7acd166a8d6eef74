# SiteLedger batch jobs
