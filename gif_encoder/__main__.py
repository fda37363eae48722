from .encoder import demo_build

if __name__ == "__main__":
    path = demo_build()
    print(f"Created: {path}")
