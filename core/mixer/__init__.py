"""core/mixer — Pure live mixer model.

Types, the FX file-channel grammar, and the full-refresh query batch.  Zero
I/O: sockets and files live in ingestion/control_surface.py,
ingestion/fx_channel.py and ingestion/fx_broker.py.
"""
