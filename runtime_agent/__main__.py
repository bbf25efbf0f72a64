"""python -m runtime_agent"""

from runtime_agent.server import main


main()
