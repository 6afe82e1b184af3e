"""Image preparation and the multimodal inference client."""
