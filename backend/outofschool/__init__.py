"""Workshop backend for the OutOfSchool registration platform.

This package keeps workshops in a relational database and mirrors them
into an Elasticsearch index for filtered listings. The service, repository
and model modules contain the concrete implementations; `sync` replays
index writes that failed.
"""
