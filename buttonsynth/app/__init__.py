"""ButtonSynth web application."""
