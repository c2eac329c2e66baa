"""ButtonSynth: language-model button generation with output sanitization."""
