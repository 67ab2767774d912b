"""Quick installation and testing script."""
import subprocess
import sys

def run_command(cmd, description):
    """Run a command and print output."""
    print(f"\n{'='*60}")
    print(f"{description}")
    print('='*60)
    try:
        result = subprocess.run(
            cmd,
            shell=True,
            capture_output=True,
            text=True,
            timeout=300
        )
        print(result.stdout)
        if result.stderr:
            print("STDERR:", result.stderr)
        print(f"Return code: {result.returncode}")
        return result.returncode == 0
    except Exception as e:
        print(f"Error: {e}")
        return False

def main():
    """Install propsync with its test extra and run the suites."""

    if not run_command(
        f"{sys.executable} -m pip install -e .[test]",
        "Step 1: Installing package with test dependencies"
    ):
        print("❌ Failed to install package")
        return

    print(f"\n{'='*60}")
    print("Step 2: Checking if propsync can be imported")
    print('='*60)
    try:
        import propsync
        print(f"✅ Imported propsync {propsync.__version__}")
        print(f"   Package location: {propsync.__file__}")
    except ImportError as e:
        print(f"❌ Failed to import propsync: {e}")
        return

    run_command(
        f"{sys.executable} -m pytest tests/unit -v --tb=short",
        "Step 3: Running unit tests"
    )

    run_command(
        f"{sys.executable} -m pytest tests/integration -m integration -v --tb=short",
        "Step 4: Running multi-client scenarios"
    )

    print(f"\n{'='*60}")
    print("Installation and testing complete!")
    print('='*60)

if __name__ == "__main__":
    main()
