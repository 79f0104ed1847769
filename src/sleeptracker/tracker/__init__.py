"""Sleep session state machine: records, stores, publisher and controllers."""
