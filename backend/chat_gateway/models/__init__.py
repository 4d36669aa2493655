"""Provider-neutral data types and the model catalog."""
